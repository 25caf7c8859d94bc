"""
Muzac API package.

A FastAPI service for the family photo calendar: one photo per user per day
in S3, preferences and family-tree members in DynamoDB, sign-in through
Cognito and timelapse rendering on a Remotion Lambda function.
"""
