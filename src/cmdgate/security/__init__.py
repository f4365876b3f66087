"""Security components for cmdgate.

Path normalization, command/argument/operator checks and working-directory
validation. ``cmdgate.core.config`` depends on ``paths``, so this package
does not import its submodules eagerly.
"""
