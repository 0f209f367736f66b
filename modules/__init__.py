"""
Application Modules.

- fabric/: Contract registry, correlation context, RPC layer, event
  forwarding pipeline, gateway relay and pagination shared by every service
"""
