from plasticwatch.models.contribution import Contribution
from plasticwatch.models.classification import Classification
from plasticwatch.models.review_history import ReviewHistory

__all__ = ["Contribution", "Classification", "ReviewHistory"]
