"""Centralized constants for Drive Relay."""

# OAuth scopes
DRIVE_SCOPE = "https://www.googleapis.com/auth/drive"
DRIVE_FILE_SCOPE = "https://www.googleapis.com/auth/drive.file"
DEFAULT_SCOPE = DRIVE_FILE_SCOPE

# Short scope codes accepted on the `td_scope` query parameter
SCOPE_SHORT_CODES = {
    'drive': DRIVE_SCOPE,
    'drive.file': DRIVE_FILE_SCOPE,
}
SCOPE_QUERY_PARAM = 'td_scope'
RETURN_QUERY_PARAM = 'td_return'

# Identity provider endpoints
GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Cookies
TEMP_COOKIE_NAME = 'dr_oauth'
REFRESH_COOKIE_NAME = 'dr_rt'
TEMP_COOKIE_MAX_AGE = 600  # 10 minutes
REFRESH_COOKIE_MAX_AGE_DAYS = 30
REFRESH_TOKEN_AAD = b'drive_relay_refresh_v1'

# Return path limits
RETURN_PATH_CLAMP = 2000
RETURN_PATH_MAX_LENGTH = 512

# Popup completion signal posted by the callback page
AUTH_COMPLETE_MESSAGE = 'drive-relay:auth-complete'
POPUP_WINDOW_NAME = 'drive_relay_auth'
POPUP_WIDTH = 500
POPUP_HEIGHT = 600
POPUP_POLL_INTERVAL = 0.3
POPUP_TIMEOUT = 300.0

# Client token cache
TOKEN_STORAGE_KEY = 'drive_relay_token'
TOKEN_SKEW_SECONDS = 60

# Sync engine
AUTOSAVE_DEBOUNCE_SECONDS = 0.8
HASH_TIMEOUT_SECONDS = 30.0
SAVER_NAME = 'drive-relay'
SAVER_PRIORITY = 2000
SAVER_CAPABILITIES = ('save', 'autosave')

# Drive API
DRIVE_METADATA_FIELDS = 'id, name, mimeType, modifiedTime, version'
DRIVE_UPLOAD_FIELDS = 'id, modifiedTime, version'
HTML_MIME_TYPE = 'text/html; charset=UTF-8'
DEFAULT_FILE_NAME = 'wiki.html'
