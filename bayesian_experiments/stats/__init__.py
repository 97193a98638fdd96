"""Statistical building blocks.

- statistics: sufficient statistics and their combinators
- conjugate: conjugate models with closed-form posterior updates
- bayesfactor: Bayes factor models for effect sizes
- decisions: expected loss and probability to beat all
- rules: stopping rules
"""
