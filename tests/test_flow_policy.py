import unittest

from lifecycle_engine.lifecycle.flow_policy import (
    FLOW_POLICY,
    QUOTE_STATUSES,
    RFQ_STATUSES,
    RFQ_TERMINAL_STATUSES,
    action_allowed,
    flow_meta,
    rfq_transition_allowed,
)


class FlowPolicyTest(unittest.TestCase):
    def test_every_status_has_a_policy(self) -> None:
        self.assertEqual(set(FLOW_POLICY["rfq"]), set(RFQ_STATUSES))
        self.assertEqual(set(FLOW_POLICY["quote"]), set(QUOTE_STATUSES))

    def test_all_stage_statuses_have_actions(self) -> None:
        for stage_name, status_map in FLOW_POLICY.items():
            self.assertTrue(status_map, f"stage without statuses: {stage_name}")
            for status_name, policy in status_map.items():
                actions = policy.get("allowed_actions") or []
                self.assertTrue(actions, f"no actions for {stage_name}:{status_name}")

    def test_primary_action_is_in_allowed_actions(self) -> None:
        for stage_name, status_map in FLOW_POLICY.items():
            for status_name, policy in status_map.items():
                primary_action = policy.get("primary_action")
                allowed_actions = policy.get("allowed_actions") or []
                if primary_action:
                    self.assertIn(primary_action, allowed_actions, f"primary outside allowed in {stage_name}:{status_name}")

    def test_only_active_quotes_can_be_decided(self) -> None:
        for status in QUOTE_STATUSES:
            expected = status == "ACTIVE"
            self.assertEqual(action_allowed("quote", status, "accept_quote"), expected, status)
            self.assertEqual(action_allowed("quote", status, "reject_quote"), expected, status)

    def test_rfq_edges(self) -> None:
        self.assertTrue(rfq_transition_allowed("DRAFT", "SENT"))
        self.assertFalse(rfq_transition_allowed("DRAFT", "ACCEPTED"))
        for terminal in RFQ_TERMINAL_STATUSES:
            self.assertTrue(rfq_transition_allowed("SENT", terminal))
            self.assertFalse(rfq_transition_allowed(terminal, "SENT"))
            self.assertFalse(rfq_transition_allowed(terminal, "DRAFT"))
        self.assertFalse(rfq_transition_allowed("SENT", "DRAFT"))
        self.assertFalse(rfq_transition_allowed(None, "SENT"))

    def test_unknown_status_has_no_actions(self) -> None:
        meta = flow_meta("purchase_order", "ARCHIVED")
        self.assertEqual(meta["allowed_actions"], [])
        self.assertIsNone(meta["primary_action"])
        self.assertFalse(action_allowed("purchase_order", "ARCHIVED", "submit_purchase_order"))


if __name__ == "__main__":
    unittest.main()
