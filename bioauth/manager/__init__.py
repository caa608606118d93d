from .asynchronous import BioAuthAsync
