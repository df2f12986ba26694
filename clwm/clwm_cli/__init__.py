"""
clwm command-line tool.

Thin I/O layer over clwm_lib: argument parsing, interactive prompts,
editor invocation and rendering of records.
"""
