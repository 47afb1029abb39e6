import numpy as np
import matplotlib.pyplot as plt

from gradfit import BinData, Fitter
from gradfit.models import UnitSquarePolynomial
from gradfit.sampling import sample

true = [1.0, 1.0, 2.0, 3.0, 0.5]
truth = UnitSquarePolynomial(true)

rng = np.random.default_rng(222)
points = sample(truth, 200_000, rng=rng)
data = BinData.from_samples(points, bins=(80, 20), range=truth.domain)

# Start far from the truth; the amplitude is in units of total entries.
model = UnitSquarePolynomial()
fitter = Fitter.configure(model, data, "chi2", initial=[50.0, 1.0, 1.0, 2.0, 1.0])
res = fitter.fit()

print(res.summary(digits=4))
print("empty bins left out:", res.stats["excluded"])

# Projection on x: data vs. fitted model (bin volumes are uniform here).
nx, ny = 80, 20
counts = data.counts.reshape(nx, ny).sum(axis=1)
xc = data.coords[:, 0].reshape(nx, ny)[:, 0]
pred = (data.scale * data.volumes * model.evaluate(data.coords.T)).reshape(nx, ny).sum(axis=1)

fig, ax = plt.subplots()
ax.errorbar(xc, counts, yerr=np.sqrt(counts), fmt=".", label="data")
ax.plot(xc, pred, label="fit")
ax.set_xlabel("x")
ax.set_ylabel("entries")
ax.legend()
plt.show()
