import enum


def enum_value(value):
    """Plain value of an enum member, anything else unchanged."""
    return value.value if isinstance(value, enum.Enum) else value
