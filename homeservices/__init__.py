"""Home-services backend: ServiceTitan integration, photo pipeline and email marketing"""
