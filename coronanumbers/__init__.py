# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Collect per-country epidemiological time series into a local DuckDB store."""

__version__ = "0.3.0"

__all__ = ["__version__"]
