# Exam Control System Configuration

import logging
import os
from datetime import timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).parent.absolute()


class Config:
    """Base configuration class"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'exam-control-secret-key-2026'

    # Document store Configuration
    DATABASE_PATH = BASE_DIR / 'database' / 'exam_control.db'
    BATCH_LIMIT = 400  # max operations per atomic batch commit
    SEED_DEMO_DATA = os.environ.get('SEED_DEMO_DATA', 'true').lower() in ['true', 'on', '1']

    # Export Configuration
    EXPORTS_FOLDER = BASE_DIR / 'exports'
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB max file size

    # QR card Configuration
    QR_FONT_PATH = os.environ.get('QR_FONT_PATH')

    # Session Configuration
    PERMANENT_SESSION_LIFETIME = timedelta(hours=8)
    SESSION_COOKIE_SECURE = False  # Set to True in production with HTTPS
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Envelope generation
    ENVELOPE_CODE_ATTEMPTS = 1000

    # Report Configuration
    REPORTS_DEFAULT_FORMAT = 'excel'
    REPORTS_RETENTION_DAYS = 30

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = BASE_DIR / 'logs' / 'exam_control.log'
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    # Development Configuration
    DEBUG = os.environ.get('DEBUG', 'False').lower() in ['true', 'on', '1']
    TESTING = False

    @classmethod
    def init_app(cls, app):
        """Initialize application configuration"""
        directories = [cls.EXPORTS_FOLDER, cls.LOG_FILE.parent]
        if str(cls.DATABASE_PATH) != ':memory:':
            directories.append(Path(cls.DATABASE_PATH).parent)

        for directory in directories:
            Path(directory).mkdir(parents=True, exist_ok=True)

        app.config.update({
            'SECRET_KEY': cls.SECRET_KEY,
            'DATABASE_PATH': str(cls.DATABASE_PATH),
            'BATCH_LIMIT': cls.BATCH_LIMIT,
            'SEED_DEMO_DATA': cls.SEED_DEMO_DATA,
            'EXPORTS_FOLDER': str(cls.EXPORTS_FOLDER),
            'QR_FONT_PATH': cls.QR_FONT_PATH,
            'REPORTS_DEFAULT_FORMAT': cls.REPORTS_DEFAULT_FORMAT,
            'REPORTS_RETENTION_DAYS': cls.REPORTS_RETENTION_DAYS,
            'ENVELOPE_CODE_ATTEMPTS': cls.ENVELOPE_CODE_ATTEMPTS,
            'PERMANENT_SESSION_LIFETIME': cls.PERMANENT_SESSION_LIFETIME,
            'SESSION_COOKIE_SECURE': cls.SESSION_COOKIE_SECURE,
            'SESSION_COOKIE_HTTPONLY': cls.SESSION_COOKIE_HTTPONLY,
            'SESSION_COOKIE_SAMESITE': cls.SESSION_COOKIE_SAMESITE,
            'MAX_CONTENT_LENGTH': cls.MAX_CONTENT_LENGTH,
            'DEBUG': cls.DEBUG,
            'TESTING': cls.TESTING,
        })


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False

    DATABASE_PATH = BASE_DIR / 'database' / 'exam_control_dev.db'

    # More verbose logging
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True

    # Use in-memory database for testing
    DATABASE_PATH = ':memory:'
    SEED_DEMO_DATA = True


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    SESSION_COOKIE_SECURE = True  # Requires HTTPS
    SEED_DEMO_DATA = False

    DATABASE_PATH = BASE_DIR / 'database' / 'exam_control_prod.db'

    # Production logging
    LOG_LEVEL = 'WARNING'

    @classmethod
    def init_app(cls, app):
        super().init_app(app)

        # Setup file logging
        if not app.debug:
            file_handler = RotatingFileHandler(
                cls.LOG_FILE,
                maxBytes=cls.LOG_MAX_BYTES,
                backupCount=cls.LOG_BACKUP_COUNT,
                encoding='utf-8'
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)

            app.logger.setLevel(logging.INFO)
            app.logger.info('Exam Control System startup')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get configuration based on environment variable"""
    return config.get(os.environ.get('FLASK_ENV', 'default'), DevelopmentConfig)


def validate_config(config_class):
    """Validate configuration settings"""
    errors = []

    if not isinstance(config_class.BATCH_LIMIT, int) or not 0 < config_class.BATCH_LIMIT <= 500:
        errors.append(f"BATCH_LIMIT must be between 1 and 500: {config_class.BATCH_LIMIT}")

    if config_class.QR_FONT_PATH and not Path(config_class.QR_FONT_PATH).exists():
        errors.append(f"QR font file does not exist: {config_class.QR_FONT_PATH}")

    return errors


def init_config(app, config_name=None):
    """Initialize application with configuration"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')

    config_class = config.get(config_name, DevelopmentConfig)
    config_class.init_app(app)

    errors = validate_config(config_class)
    if errors:
        for error in errors:
            app.logger.error(f"Configuration error: {error}")
        raise RuntimeError("Configuration validation failed")

    logging.getLogger('exam_control').setLevel(config_class.LOG_LEVEL)
    return config_class
