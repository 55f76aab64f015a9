import os
import sys
import unittest

# Add repo root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from addresses import make_address
from auth_gate import AuthorizationGate
from ledger import Ledger
from liquidation_errors import AlreadyInitialized, Unauthorized, UnauthorizedLender


class TestAuthorizationGate(unittest.TestCase):
    def setUp(self):
        self.ledger = Ledger()
        self.owner = make_address("owner")
        self.lender = make_address("flash-lender")
        self.gate = AuthorizationGate(self.ledger, make_address("flash-liquidator"), self.lender)

    def test_owner_unset_until_initialized(self):
        self.assertIsNone(self.gate.owner)
        with self.assertRaises(Unauthorized):
            self.gate.require_owner(self.owner)

    def test_initialize_binds_owner_once(self):
        self.gate.initialize(self.owner)
        self.assertEqual(self.gate.owner, self.owner)

        with self.assertRaises(AlreadyInitialized):
            self.gate.initialize(make_address("someone-else"))
        self.assertEqual(self.gate.owner, self.owner)

    def test_owner_check_ignores_case(self):
        self.gate.initialize(self.owner.lower())
        self.assertTrue(self.gate.is_owner(self.owner))
        self.gate.require_owner(self.owner.lower())

    def test_stranger_is_not_owner(self):
        self.gate.initialize(self.owner)
        with self.assertRaises(Unauthorized):
            self.gate.require_owner(make_address("stranger"))

    def test_lender_origin(self):
        self.gate.require_lender(self.lender)
        with self.assertRaises(UnauthorizedLender):
            self.gate.require_lender(self.owner)


if __name__ == '__main__':
    unittest.main()
