# Metadata package: remote publish-year resolution and its TTL cache.
