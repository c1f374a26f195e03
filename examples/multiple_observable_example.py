import numpy as np
from llkit import (
    Constraint,
    LogLikelihood,
    ObservableCache,
    ObservableRegistry,
    ParameterTemplate,
    Parameters,
    amoroso_limit,
    log_gamma,
    multivariate_gaussian,
)

params = Parameters([ParameterTemplate("C", -2.0, 0.0, 2.0)])

# Predictions looked up by name; ",model=..." suffixes become options
registry = ObservableRegistry()
registry.register("xsec1", lambda p, k, o: 1.0 + 0.4 * p["C"])
registry.register("xsec2", lambda p, k, o: 0.8 - 0.2 * p["C"])
registry.register(
    "rate", lambda p, k, o: float(o.get("scale", 1.0)) * k["q2"] * p["C"] ** 2, kinematics_names=["q2"]
)

xsec1 = registry.make("xsec1", params)
xsec2 = registry.make("xsec2", params)
rate = registry.make("rate,scale=0.5", params, kinematics={"q2": 2.0})

# Constraints are built on a scratch cache and re-bound when added
scratch = ObservableCache(params)

V = np.array([[0.04**2, 0.5 * 0.04 * 0.05], [0.5 * 0.04 * 0.05, 0.05**2]])
correlated = Constraint(
    "xsec@Experiment-A",
    [xsec1, xsec2],
    [multivariate_gaussian(scratch, [xsec1, xsec2], [1.05, 0.78], V, 2)],
)

# Asymmetric measurement 1.1 +0.3 -0.1
skewed = Constraint("xsec1@Experiment-B", [xsec1], [log_gamma(scratch, xsec1, 1.0, 1.1, 1.4)])

# Upper limits on the rate: 0.5 (90% CL) and 0.6505 (95% CL)
limit = Constraint(
    "rate@Experiment-C",
    [rate],
    [amoroso_limit(scratch, rate, 0.0, 0.5, 0.6505, theta=0.21715, alpha=1.0)],
)

llh = LogLikelihood(params)
for c in (correlated, skewed, limit):
    llh.add(c)

grid = np.linspace(-2, 2, 161)
scan = []
for c in grid:
    params.set("C", float(c))
    scan.append(llh())
best = float(grid[int(np.argmax(scan))])
print("best fit C:", best)

params.set("C", best)
llh()
for constraint in llh:
    print(constraint)
    for block in constraint.blocks:
        print("  significance:", block.significance())

print("bootstrap p-value: %.3f +- %.3f" % llh.bootstrap_p_value(2000))
