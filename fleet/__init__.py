"""Fleet rollout reconciler.

Drives the replica sets of a deployment toward its declared template and
replica count, one pass at a time, with two update strategies:
 - RollingUpdate: new replica set, replicas shifted within surge/unavailable budgets
 - InPlace: an external agent upgrades the machines; completion is detected
   when a replica set's template matches the deployment again
"""
