# Pipeline package: feed hosts, the incremental processing controller and
# the convergence scroll driver.
