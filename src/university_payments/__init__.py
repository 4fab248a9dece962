"""University payments: payment notifications, student records and bank reconciliation."""

__version__ = "0.1.0"
