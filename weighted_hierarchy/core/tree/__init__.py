"""Arena-backed milestone hierarchy.

Sub-milestones may nest without limit, so the tree stores nodes flat by id
and every traversal here is iterative rather than recursive.
"""
