# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
iterator_item: expand `fn*` iterator items into Python iterators.

    fn* count_to(n: u32) yields u32 {
        let mut i = 0;
        while i < n { yield i; i += 1; }
    }

`expand` returns the generated module source plus diagnostics; `load` and
`iterator_item` execute it and hand back the item functions.
"""

from iterator_item.core.diagnostics import Diagnostic, ErrorKind, ExpansionError
from iterator_item.emit import EmitOptions
from iterator_item.pipeline import ExpansionResult, expand, expand_or_raise, iterator_item, load

__all__ = [
	"Diagnostic",
	"EmitOptions",
	"ErrorKind",
	"ExpansionError",
	"ExpansionResult",
	"expand",
	"expand_or_raise",
	"iterator_item",
	"load",
]
