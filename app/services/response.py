class ListResponseMixin:
    """Adds ``list_response`` to service classes exposing a ``list`` method.

    ``limit`` and ``offset`` must be the last two positional arguments of ``list``.
    """

    @classmethod
    def list_response(cls, db, *args, **kwargs) -> dict:
        items = cls.list(db, *args, **kwargs)
        limit = kwargs.get("limit", args[-2] if len(args) >= 2 else None)
        offset = kwargs.get("offset", args[-1] if args else None)
        return {"items": items, "count": len(items), "limit": limit, "offset": offset}
