from sqlalchemy import inspect as sa_inspect


def find_unknown_model_kwargs(model, kwargs: dict) -> list[str]:
    """
    Return the keys of `kwargs` that are not column attributes of `model`.

    Relationships are not accepted either: repositories write plain column values only.
    """
    allowed = {attr.key for attr in sa_inspect(model).column_attrs}
    return [k for k in kwargs if k not in allowed]


def find_readonly_kwargs(model, kwargs: dict, extra: tuple[str, ...] = ()) -> list[str]:
    """
    Return the keys of `kwargs` that must not be written by an update:
    primary key columns, server-maintained timestamps, and anything in `extra`.
    """
    mapper = sa_inspect(model)
    readonly = {attr.key for attr in mapper.column_attrs if attr.columns[0].primary_key}
    readonly.update({"created_at", "updated_at"}, extra)
    return [k for k in kwargs if k in readonly]
