# SPDX-License-Identifier: MIT

"""K8s resource quantity parsing (cpu, memory) and formatting."""

from __future__ import annotations

_MEMORY_SUFFIXES = {
    "Ki": 1024, "Mi": 1024**2, "Gi": 1024**3, "Ti": 1024**4, "Pi": 1024**5,
    "K": 1000, "M": 1000**2, "G": 1000**3, "T": 1000**4, "P": 1000**5,
    "k": 1000, "m": 0.001,
}


def parse_cpu_millicores(val: str | int | float | None) -> float | None:
    """``"250m"`` -> 250.0, ``"1.5"`` -> 1500.0. Unparseable input -> None."""
    if val is None:
        return None
    s = str(val).strip()
    try:
        if s.endswith("m"):
            return float(s[:-1])
        if s.endswith("u"):
            return float(s[:-1]) / 1000
        if s.endswith("n"):
            return float(s[:-1]) / 1_000_000
        return float(s) * 1000
    except ValueError:
        return None


def parse_memory_bytes(val: str | int | float | None) -> float | None:
    if val is None:
        return None
    s = str(val).strip()
    try:
        for suffix, multiplier in sorted(_MEMORY_SUFFIXES.items(), key=lambda x: -len(x[0])):
            if s.endswith(suffix):
                return float(s[: -len(suffix)]) * multiplier
        return float(s)
    except ValueError:
        return None


def fmt_memory(bytes_val: float) -> str:
    if bytes_val >= 1024**3:
        return f"{bytes_val / 1024**3:.1f}Gi"
    if bytes_val >= 1024**2:
        return f"{bytes_val / 1024**2:.0f}Mi"
    return f"{bytes_val / 1024:.0f}Ki"
