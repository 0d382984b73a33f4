"""PixProof: reconciliation of PIX receipts against bank statement lines."""

__version__ = "0.3.0"
__author__ = "PixProof Contributors"
