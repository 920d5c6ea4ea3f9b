from .service import ensure_customer

__all__ = ["ensure_customer"]
