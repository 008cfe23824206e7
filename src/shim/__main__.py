"""Shim entrypoint.

Run with:
  python -m shim
"""

import os
import uvicorn

def main() -> None:
    host = os.getenv("SHIM_HOST", "127.0.0.1")
    port = int(os.getenv("SHIM_PORT", "8080"))
    reload = os.getenv("SHIM_RELOAD", "false").lower() in {"1", "true", "yes", "y"}
    uvicorn.run("shim.app:create_app", factory=True, host=host, port=port, reload=reload)

if __name__ == "__main__":
    main()
