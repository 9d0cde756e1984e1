from .dialect import TypedliteDialect

__all__ = ["TypedliteDialect"]
