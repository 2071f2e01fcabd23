"""shortlink: URL shortener with cache-aside redirects and asynchronous click accounting."""
