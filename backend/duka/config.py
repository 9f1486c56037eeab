# backend/duka/config.py
from __future__ import annotations
import os


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/duka.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///duka.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Printed at the top of every receipt
    SHOP_NAME = os.environ.get("SHOP_NAME", "NIT-NIT CEREALS & SHOP")
    RECEIPT_WIDTH = int(os.environ.get("RECEIPT_WIDTH", "32"))

    # M-Pesa (Daraja) STK push; leave the key unset to disable initiation
    MPESA_BASE_URL = os.environ.get("MPESA_BASE_URL", "https://sandbox.safaricom.co.ke")
    MPESA_CONSUMER_KEY = os.environ.get("MPESA_CONSUMER_KEY")
    MPESA_CONSUMER_SECRET = os.environ.get("MPESA_CONSUMER_SECRET")
    MPESA_SHORTCODE = os.environ.get("MPESA_SHORTCODE", "174379")
    MPESA_PASSKEY = os.environ.get("MPESA_PASSKEY")
    MPESA_CALLBACK_URL = os.environ.get("MPESA_CALLBACK_URL")
    MPESA_TIMEOUT_SECONDS = float(os.environ.get("MPESA_TIMEOUT_SECONDS", "30"))

    # Stock-sync retry attempts before an issue is abandoned
    STOCK_SYNC_MAX_ATTEMPTS = int(os.environ.get("STOCK_SYNC_MAX_ATTEMPTS", "5"))
