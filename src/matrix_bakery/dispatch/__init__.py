"""Build dispatch: backends, the bounded-parallel dispatcher and job results."""
