"""
Provisioner package for launching browser worker containers on demand.

This package exposes typed helpers for capability discovery, admission control,
port allocation, and container launching, plus the FastAPI adapter that lets a
browser-test grid drive them.
"""

from __future__ import annotations

__all__ = [
    "admission",
    "api",
    "capabilities",
    "config",
    "launcher",
    "main",
    "manager",
    "ports",
    "proxy",
    "runtime",
    "tracking",
    "types",
]
