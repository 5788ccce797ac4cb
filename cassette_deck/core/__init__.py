"""Core transcript model, time-range algebra, and timeline sync.

WHY: The core package is the pure heart of the recorder: the IR
dataclasses and the functions that keep transcript text, word timing,
and snippet order consistent through edits.

HOW: ir.py defines the data structures, timeline.py the time-range
algebra (select/split/delete/extract/shift), sync.py the cursor and
timestamp mapping plus insertion and rebuild after reordering.

RULES:
- No I/O, no logging, no network in this package
- IR dataclasses are the contract; change with care
"""
