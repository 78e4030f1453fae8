"""
SniProbe — Systems

  server — SNI observation server (reference side)
  client — context manager and probing client
  demo   — orchestrator and report
"""
