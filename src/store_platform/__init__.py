"""Store platform: provisions isolated e-commerce stores on Kubernetes."""
