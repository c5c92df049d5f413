from __future__ import annotations

import os

os.environ.setdefault("ADCAST_JWT_SIGNING_KEY", "test-signing-key")
