"""HTTP adapters: health router, RFC 7807 error handlers, app factory."""
