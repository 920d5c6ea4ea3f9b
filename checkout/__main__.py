"""
Lance le service de checkout sous uvicorn.

Usage:
    python -m checkout

Variables d'environnement:
- HOST / PORT: interface et port d'écoute (0.0.0.0:8000 par défaut)
- UVICORN_RELOAD: reload auto en dev ("1"/"true"/"yes")
- LOG_LEVEL: niveau de logs uvicorn et des loggers `checkout.*`
"""
import logging
import os

import uvicorn

def main() -> None:
    log_level = os.environ.get("LOG_LEVEL", "info").lower()
    logging.basicConfig(level=log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")
    uvicorn.run(
        "checkout.asgi:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", 8000)),
        reload=os.environ.get("UVICORN_RELOAD", "").lower() in ("1", "true", "yes"),
        log_level=log_level,
    )

if __name__ == "__main__":
    main()
