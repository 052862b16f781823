"""
Recommendations Module Summary
==============================

Town level recommendation engine for local businesses.

Key Features Implemented:
1. Category vocabulary shared by every flow graph
2. TownFlowGraph - weighted "what locals do next" edges and greedy chain derivation
3. Season and route window resolution with admin overrides
4. Daily recommendation composer gated by town milestones
5. REST API endpoints and admin
"""
