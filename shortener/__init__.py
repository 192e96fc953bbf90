"""Link shortener: hash-derived short codes, cache-aside redirects, admission control."""
