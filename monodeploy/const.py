BUILD_DESCRIPTOR = 'Dockerfile'
DOC_MARKER = 'README'
DOC_SUFFIX = '.md'

AUDIT_MANIFESTS = ('requirements.txt', 'pyproject.toml')
AUDITABLE_MANIFEST = 'requirements.txt'

SCAN_IMAGE_PREFIX = 'local-scan'

PRIMARY_EVENT_TYPE = 'update-deployments'
FALLBACK_EVENT_TYPE = 'simple-update'

GH_API_BASE = 'https://api.github.com'
GH_SERVER_URL = 'https://github.com'
