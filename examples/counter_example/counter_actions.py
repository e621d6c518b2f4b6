from flowstore import create_action

increment = create_action("[Counter] Increment")
decrement = create_action("[Counter] Decrement")
reset = create_action("[Counter] Reset", lambda value: value)
increment_by = create_action("[Counter] Increment By", lambda amount: amount)

load_count_request = create_action("[Counter] Load Count Request")
load_count_success = create_action("[Counter] Load Count Success", lambda value: value)
load_count_failure = create_action("[Counter] Load Count Failure", lambda error: error)

rename_user = create_action("[User] Rename", lambda name: name)
