# Defaults for the confreview service. Override with a mapping passed to
# create_app(), a config file, or instance/config.cfg.
ENV = "production"
LOG_FILE = "confreview.log"

DATABASE_URL = "sqlite:///confreview.db"
SQL_ECHO = False
CREATE_TABLES = True

# leave unset to serialize auto-assign runs inside this process only
REDIS_URL = None
AUTO_ASSIGN_LOCK_TIMEOUT = 30
AUTO_ASSIGN_LOCK_EXPIRE = 300

DEFAULT_REVIEWERS_PER_PAPER = 3

NOTIFICATIONS_ENABLED = True
NOTIFICATION_WEBHOOK_URL = None

# merged into the Celery configuration
CELERY = {}
