"""Browser sessions, page fetching, retries and the parallel fetch engine."""
