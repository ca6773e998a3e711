"""ArgoCD Helm Updater.

Detect and apply Helm chart version updates in ArgoCD GitOps manifests.
"""

__version__ = "0.1.0"
__author__ = "Platform Engineering Team"
__license__ = "Apache-2.0"
