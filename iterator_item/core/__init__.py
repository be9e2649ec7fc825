# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""Shared diagnostic and location types used by every pipeline stage."""

from .diagnostics import Diagnostic, ErrorKind, ExpansionError, has_errors
from .span import Span

__all__ = ["Diagnostic", "ErrorKind", "ExpansionError", "Span", "has_errors"]
