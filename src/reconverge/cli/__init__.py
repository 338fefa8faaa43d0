"""Command-line interface (``reconverge``)."""
