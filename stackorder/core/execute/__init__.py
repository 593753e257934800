"""Stage execution.

Runs a precomputed schedule against a StackRunner: stages strictly in order,
every stack inside a stage concurrently, failures collected per stack.
"""
