# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Common utilities shared across coronanumbers components."""

from .logs import configure_root_logger, get_logger
from .run_io import write_json

__all__ = [
    "configure_root_logger",
    "get_logger",
    "write_json",
]
