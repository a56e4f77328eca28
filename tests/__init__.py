"""
Consistency Engine Test Package

TEST AXIOMS:
============
1. Determinism: same novel state + extraction = same report
2. Inconsistencies surface as issues, skipped work as Error data
3. Fixtures are explicit - no random story data outside hypothesis
"""
