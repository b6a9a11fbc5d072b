"""
Configuration module for Lambda handlers.
Loads all environment variables needed by the marketplace.
"""
import os


class Config:
    """Centralized configuration from environment variables."""
    
    # AWS Region
    AWS_REGION = os.environ.get('AWS_REGION', 'us-east-1')
    
    # DynamoDB Tables
    WORKERS_TABLE = os.environ.get('WORKERS_TABLE', '')
    CLIENTS_TABLE = os.environ.get('CLIENTS_TABLE', '')
    JOBS_TABLE = os.environ.get('JOBS_TABLE', '')
    EVENTS_TABLE = os.environ.get('EVENTS_TABLE', '')
    COUNTERS_TABLE = os.environ.get('COUNTERS_TABLE', '')
    LOCKS_TABLE = os.environ.get('LOCKS_TABLE', '')
    WALLETS_TABLE = os.environ.get('WALLETS_TABLE', '')
    TRANSACTIONS_TABLE = os.environ.get('TRANSACTIONS_TABLE', '')
    
    # Dispute arbitration
    ARBITER_ID = os.environ.get('ARBITER_ID', '')
    DISPUTE_DEFAULT_RATING = int(os.environ.get('DISPUTE_DEFAULT_RATING', '3'))  # Neutral rating when a party has none
    
    # Per-job lease locks
    LOCK_TTL_SECONDS = int(os.environ.get('LOCK_TTL_SECONDS', '30'))
    LOCK_MAX_ATTEMPTS = int(os.environ.get('LOCK_MAX_ATTEMPTS', '50'))
    LOCK_RETRY_DELAY = float(os.environ.get('LOCK_RETRY_DELAY', '0.05'))
    
    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


config = Config()
