"""mpmdemog: demographic analysis of matrix population models.

Life expectancy, entropy, vital rates and perturbation analysis from
stage-structured matrix population models A = U + F (+ C):
  - lifetable:   age trajectories (lx, px, hx, mx), life tables, QSD age
  - lifehistory: life expectancy, longevity, maturity, R0, generation time,
                 entropies, shape of survival and reproduction
  - vitalrates:  survival, growth, shrinkage, stasis, dormancy, reproduction
  - perturb:     sensitivities and elasticities of lambda
  - transform:   collapse, split, rearrange and standardize models
  - summary:     batch trait summaries driven by a YAML config

Stage indices are 0-based throughout.
"""

__version__ = "0.1.0"
