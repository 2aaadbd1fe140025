"""
REST API: task and user endpoints, the store gateway and the mutation
coordinator.
"""
