from .service import AUTO_CLOSE_NOTE, NoticeService

__all__ = ["AUTO_CLOSE_NOTE", "NoticeService"]
