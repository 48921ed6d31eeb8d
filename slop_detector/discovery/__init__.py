# Discovery and classification module
