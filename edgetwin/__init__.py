"""
Edge-computing digital twin package.

Modules:
- state: in-memory topology of edge/central nodes, users, arcs and replicas
- latency: two-term service delay estimate with warm/cold state
- policy: user-to-node assignment policies (greedy with hysteresis)
- mobility: projected user paths (linear, kalman, markov, neural, gravity)
- lifecycle: warm/cold timeout sweeper
- simulation: tick driver and command/query surface
- api: REST API surface for commands and snapshots
"""
