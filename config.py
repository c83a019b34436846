"""
Application configuration.

This module defines the configuration settings for the Order Flow application: database connection,
secret key, cache, uploads, logging and the WooCommerce import endpoint. Values come from environment
variables (a local .env file is loaded first) with defaults suitable for development. In production,
set the environment variables explicitly and secure the secret key.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent

load_dotenv(BASE_DIR / ".env")


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'orderflow.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # CSRF protection (API clients fetch the token from /auth/csrf-token)
    WTF_CSRF_ENABLED = True

    APP_NAME = "Order Flow"

    # Flask-Caching backend used by the order cache service
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "SimpleCache")
    CACHE_DEFAULT_TIMEOUT = 300

    # Order list snapshots are considered fresh for this many seconds
    ORDER_CACHE_TTL = int(os.environ.get("ORDER_CACHE_TTL", "30"))
    # How long a concurrent reader waits for an in-flight fetch of the same key
    ORDER_CACHE_WAIT = float(os.environ.get("ORDER_CACHE_WAIT", "10"))

    # Uploaded artwork / proofs
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", str(BASE_DIR / "uploads"))
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024

    LOG_DIR = os.environ.get("LOG_DIR", str(BASE_DIR / "logs"))

    # WooCommerce order fetch endpoint (bearer token auth)
    WOOCOMMERCE_FETCH_URL = os.environ.get("WOOCOMMERCE_FETCH_URL", "")
    WOOCOMMERCE_API_TOKEN = os.environ.get("WOOCOMMERCE_API_TOKEN", "")
    WOOCOMMERCE_TIMEOUT = int(os.environ.get("WOOCOMMERCE_TIMEOUT", "20"))

    # GST applied to manual orders when requested
    GST_RATE = os.environ.get("GST_RATE", "0.18")


class TestConfig(Config):
    """Configuration used by the test-suite."""

    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WTF_CSRF_ENABLED = False
    CACHE_TYPE = "SimpleCache"
    ORDER_CACHE_WAIT = 1.0
    WOOCOMMERCE_FETCH_URL = "https://shop.example.test/functions/woocommerce-fetch"
    WOOCOMMERCE_API_TOKEN = "test-token"
