# ==============================================================================
# config.py
# ------------------------------------------------------------------------------
# Configuration settings for the Flask application.
# Uses environment variables for sensitive data to keep them out of version control.
# ==============================================================================

import os
from dotenv import load_dotenv

# Determine the absolute path of the project directory
basedir = os.path.abspath(os.path.dirname(__file__))

# Load environment variables from a .env file located in the project root
load_dotenv(os.path.join(basedir, '.env'))

class Config:
    """
    Base configuration class. Contains default settings that can be overridden
    by environment-specific configurations.
    """
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-should-really-set-a-secret-key-in-your-env-file'

    # --- Database Configuration ---
    # SQLite file in the 'instance' folder unless DATABASE_URL points elsewhere.
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///' + os.path.join(basedir, 'instance/marfanet.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # --- File Import Configuration ---
    ALLOWED_EXTENSIONS = {'.json', '.xlsx', '.ods'}

    # --- Invoicing ---
    # Used when the INVOICE_DUE_DAYS setting has not been seeded yet.
    INVOICE_DUE_DAYS = int(os.environ.get('INVOICE_DUE_DAYS') or 30)


class TestConfig(Config):
    """In-memory database for the test-suite."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
