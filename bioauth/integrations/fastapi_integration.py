from bioauth.manager.asynchronous import BioAuthAsync

# The service instance used by the routers.
auth_service = BioAuthAsync()


def get_auth_service() -> BioAuthAsync:
    """FastAPI dependency returning the shared service. Override it in tests or to plug in other stores."""
    return auth_service
