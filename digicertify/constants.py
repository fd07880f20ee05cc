# Authored certificate canvas: A4 landscape at 96 dpi.
CERT_WIDTH = 1120
CERT_HEIGHT = 790

CANVAS_BACKGROUND = "#FDFDFB"

CERT_ID_PREFIX = "DC-"
CERT_ID_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
CERT_ID_LENGTH = 8
CERT_ID_MAX_ATTEMPTS = 5

DEFAULT_VERIFY_BASE_URL = "https://digicertify.com/verify"

ISSUER_NAME = "DigiCertify Platform"
SIGNATORY_NAME = "J. Anderson"

PREVIEW_MAX_WIDTH = 800

# Node ids on the render stage.
PREVIEW_NODE_ID = "certificate-preview"
HIDDEN_NODE_ID = "certificate-print-node"

# Delays in milliseconds; layout settle heuristics, not correctness barriers.
BUSY_SETTLE_MS = 100
CAPTURE_SETTLE_MS = 60
MOUNT_SETTLE_MS = 100
UNMOUNT_SETTLE_MS = 0

DOWNLOADED_SIGNAL_SECONDS = 3

ROSTER_COLUMNS = ["USN", "Name", "Course", "Score"]

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin123"
