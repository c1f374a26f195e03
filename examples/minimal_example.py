import numpy as np
from llkit import LogLikelihood, Observable, ParameterTemplate, Parameters
import matplotlib.pyplot as plt
from llkit.plot import plot_bootstrap

# One parameter, one observable
params = Parameters([ParameterTemplate("C", -2.0, 0.0, 2.0)])
xsec = Observable("xsec1", lambda p, k, o: 100 + 10 * p["C"] ** 2, params)

llh = LogLikelihood(params)
# Measured 105 +- 10
llh.add_observable(xsec, 95.0, 105.0, 115.0)

# Scan the log-likelihood
grid = np.linspace(-2, 2, 101)
scan = []
for c in grid:
    params.set("C", float(c))
    scan.append(llh())
best = float(grid[int(np.argmax(scan))])
print("best fit C:", best)

# Goodness of fit at the best-fit point
params.set("C", best)
result = llh.bootstrap(5000)
print(f"p-value: {result.p_value:.3f} +- {result.uncertainty:.3f}")

ax = plot_bootstrap(result)
ax.set_title("Bootstrap distribution of log L")
plt.show()
