# Settings package: persistent records, per-context filter configuration and
# process-wide preferences.
