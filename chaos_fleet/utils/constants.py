import os

# Get the package directory
PACKAGE_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
TEMPLATE_DIR = os.path.join(PACKAGE_ROOT, "templates")

ROUND_TABLE_TEMPLATE_PATH = os.path.join(TEMPLATE_DIR, "round_table.j2")
FLEET_REPORT_TEMPLATE_PATH = os.path.join(TEMPLATE_DIR, "fleet_report.j2")
SUMMARY_TEMPLATE_PATH = os.path.join(TEMPLATE_DIR, "summary.j2")
CONFIRMATION_TEMPLATE_PATH = os.path.join(TEMPLATE_DIR, "confirmation.j2")

# timing (sec)
POLL_INTERVAL = 2.0
HEALTH_PROBE_TIMEOUT = 5.0
DEFAULT_ROUND_TIMEOUT = 120
DEFAULT_CONTAINER_TIMEOUT = 90
DEFAULT_ALERT_COOLDOWN = 300

# exit codes
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

FLEET_STRATEGIES = ("restart", "report")
