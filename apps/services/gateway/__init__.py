# Gateway package: typed message contract and the broker that serves it.
