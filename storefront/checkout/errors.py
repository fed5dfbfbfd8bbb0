"""
Erreurs du checkout.
- Fatales: remontent jusqu'à la vue (message actionnable, on ne quitte pas l'écran de paiement).
- Les échecs "reported"/"silent" ne lèvent pas: ils sont absorbés par le finalizer (warnings / logs).
"""

class CheckoutError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidPaymentMethodError(CheckoutError):
    status_code = 422


class CheckoutSessionMissingError(CheckoutError):
    """Panier vide ou informations de livraison absentes au moment du récapitulatif."""
    status_code = 400


class CheckoutClosedError(CheckoutError):
    """Jeton d'une tentative déjà terminée (commande créée ou annulée): le récapitulatif doit être rechargé."""
    status_code = 409


class OrderCreationError(CheckoutError):
    """Échec d'insertion de la ligne 'orders': abandon complet du flux."""
    status_code = 502


class InvoicePaymentError(CheckoutError):
    """Échec de mise à jour de la facture dans le parcours 'paiement de facture'."""
    status_code = 502


class DuplicateOrderError(Exception):
    """Violation d'unicité sur orders.order_number: la commande existe déjà."""

    def __init__(self, order_number: str):
        super().__init__(f"order_number déjà utilisé: {order_number}")
        self.order_number = order_number
