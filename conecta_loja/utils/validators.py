def require_positive_number(v: float, name: str = "value") -> None:
    if v is None or v <= 0:
        raise ValueError(f"{name} must be > 0")


def parse_positive_int(text: str, name: str = "value") -> int:
    v = int(text.strip())
    require_positive_number(v, name)
    return v
