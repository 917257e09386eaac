# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Environment-based configuration for TP → Canvas Calendar Sync
"""
import os

# Environment Detection
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'production')
DEBUG = ENVIRONMENT == 'development'

# TP (source timetable system)
TP_URL = os.environ.get('TP_URL', "https://tp.uio.no/uit/")
TP_KEY = os.environ.get('TP_KEY', '')
TP_INSTITUTION = int(os.environ.get('TP_INSTITUTION', 186))

# Canvas (mirror calendar system)
CANVAS_URL = os.environ.get('CANVAS_URL', "https://uit.instructure.com/")
CANVAS_KEY = os.environ.get('CANVAS_KEY', '')
CANVAS_ACCOUNT_ID = int(os.environ.get('CANVAS_ACCOUNT_ID', 1))

# Second Canvas environment, only used by the compare command
CANVAS_COMPARE_URL = os.environ.get('CANVAS_COMPARE_URL', "https://uit.test.instructure.com/")
CANVAS_COMPARE_KEY = os.environ.get('CANVAS_COMPARE_KEY', '')

# Change queue (RabbitMQ)
RABBITMQ_HOST = os.environ.get('RABBITMQ_HOST', 'localhost')
RABBITMQ_PORT = int(os.environ.get('RABBITMQ_PORT', 5672))
RABBITMQ_VHOST = os.environ.get('RABBITMQ_VHOST', '/')
RABBITMQ_USER = os.environ.get('RABBITMQ_USER', 'guest')
RABBITMQ_PASSWORD = os.environ.get('RABBITMQ_PASSWORD', 'guest')
RABBITMQ_EXCHANGE = os.environ.get('RABBITMQ_EXCHANGE', 'tp-course-pub')
RABBITMQ_QUEUE = os.environ.get('RABBITMQ_QUEUE', 'tp-canvas-sync')
RECONNECT_GRACE_SECONDS = int(os.environ.get('RECONNECT_GRACE_SECONDS', 10))
REDELIVERY_DELAY_SECONDS = int(os.environ.get('REDELIVERY_DELAY_SECONDS', 30))

# Shadow store
SHADOW_DB_PATH = os.environ.get('SHADOW_DB_PATH', '/data/tp_canvas.sqlite3')

# Sync Settings
DRY_RUN_MODE = os.environ.get('DRY_RUN_MODE', 'False').lower() == 'true'
MAX_SEMESTER = os.environ.get('MAX_SEMESTER', '26h')
IGNORED_COURSE_PREFIXES = [
    prefix.strip() for prefix in os.environ.get('IGNORED_COURSE_PREFIXES', 'BOOK,EKS').split(',')
    if prefix.strip()
]
LOCAL_TIMEZONE = os.environ.get('LOCAL_TIMEZONE', 'Europe/Oslo')

# Retry Settings
MAX_RETRIES = int(os.environ.get('MAX_RETRIES', 5))
RETRY_DELAY = float(os.environ.get('RETRY_DELAY', 3.0))
REQUEST_TIMEOUT = int(os.environ.get('REQUEST_TIMEOUT', 30))

# Scheduled batch runs (in minutes)
SYNC_INTERVAL_MIN = int(os.environ.get('SYNC_INTERVAL_MIN', 360))
SYNC_SEMESTERS = [
    semester.strip() for semester in os.environ.get('SYNC_SEMESTERS', '').split(',')
    if semester.strip()
]

# Logging
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
STRUCTURED_LOGGING = os.environ.get('STRUCTURED_LOGGING', 'True').lower() == 'true'

# Development Settings
if DEBUG:
    LOG_LEVEL = 'DEBUG'
    DRY_RUN_MODE = True
    SYNC_INTERVAL_MIN = 1
