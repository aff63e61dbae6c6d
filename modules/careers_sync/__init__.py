from .main import run  # so: from modules.careers_sync import run

__all__ = ["run"]
