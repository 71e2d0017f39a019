"""Find the bors merge that introduced a regression into Rust."""

__version__ = "0.1.0"

# Oldest integration commit the bisection searches from by default.
EPOCH_COMMIT = "927c55d86b0be44337f37cf5b0a76fb8ba86e06c"
