"""Allow ``python -m keycloak_e2e``."""

import sys

from keycloak_e2e.cli import main

if __name__ == "__main__":
    sys.exit(main())
