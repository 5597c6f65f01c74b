"""Rancher smoke tests.

Provision a downstream cluster through Rancher with Terraform, then prove it works
by deploying a workload and checking pod readiness, logs and exec.
"""

__version__ = "0.1.0"
__author__ = "Platform Engineering Team"
__license__ = "Apache-2.0"
