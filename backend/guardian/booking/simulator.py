"""
Synthetic booking options.

Produces a handful of priced alternatives around a validated booking so
a client can pick one before confirming.
"""
import random
from typing import Any, Dict, List, Optional

OPERATORS = {
    'bus': ['RedBus Express', 'VRL Travels', 'SRS Travels', 'Orange Travels', 'Neeta Travels'],
    'train': ['Indian Railways', 'Rajdhani Express', 'Shatabdi Express', 'Duronto Express'],
    'flight': ['Air India', 'IndiGo', 'SpiceJet', 'Vistara', 'GoAir']
}

FEATURES = {
    'bus': ['AC', 'WiFi', 'Charging Points', 'Entertainment', 'Blanket'],
    'train': ['AC', 'Meals Included', 'Bedding', 'WiFi', 'Pantry Car'],
    'flight': ['In-flight Meals', 'Entertainment', 'WiFi', 'Extra Legroom', 'Priority Boarding']
}

MIN_OPTIONS = 3
MAX_OPTIONS = 5


class BookingSimulator:
    """
    Generates 3 to 5 options with +/-20% price variation, sorted by price.

    Pass a seeded ``random.Random`` for reproducible output.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def generate_options(self, validated: Dict[str, Any]) -> List[Dict[str, Any]]:
        base_price = validated['estimatedPrice']
        booking_type = validated['type']
        count = self.rng.randint(MIN_OPTIONS, MAX_OPTIONS)

        options = []
        for index in range(count):
            price_variation = 0.8 + self.rng.random() * 0.4
            options.append({
                'optionId': f"OPT{index + 1}",
                **validated,
                'estimatedPrice': max(1, round(base_price * price_variation)),
                'timeVariation': self.rng.randint(-2, 1),
                'availability': 'available' if self.rng.random() > 0.1 else 'limited',
                'operator': self._pick_operator(booking_type),
                'features': self._pick_features(booking_type)
            })

        options.sort(key=lambda option: option['estimatedPrice'])
        return options

    def _pick_operator(self, booking_type: str) -> str:
        return self.rng.choice(OPERATORS.get(booking_type, ['Generic Operator']))

    def _pick_features(self, booking_type: str) -> List[str]:
        available = FEATURES.get(booking_type, [])
        count = min(self.rng.randint(2, 4), len(available))
        return self.rng.sample(available, count)


__all__ = ['BookingSimulator', 'OPERATORS', 'FEATURES']
